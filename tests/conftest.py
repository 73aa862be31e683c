"""Pytest configuration for action-kb tests."""

from pathlib import Path

import pytest

from action_kb.core.config import KnowledgeBaseConfig
from action_kb.core.embeddings import EmbeddingConfig, FallbackEmbeddingProvider
from action_kb.core.observability import ObservabilityManager
from action_kb.knowledge.service import ActionKnowledgeBase
from action_kb.models.actions import AtomicAction


PLAYER_SCREEN_JAVA = """\
package com.example.ui.ctvscreens.pplus;

import java.util.List;
import java.util.Map;

public class PlayerScreen extends BaseScreen {

    public PlayerScreen(WebDriver driver) {
        super(driver);
    }

    public void clickPlayButton() {
        find(PLAY).click();
    }

    public String getTitle() {
        return find(TITLE).getText();
    }

    public boolean isPlaying() {
        return true;
    }

    public static List<String> listEpisodes(Map<String, String> filters, int limit) {
        return null;
    }

    private void helper() {
    }
}
"""

HOME_SCREEN_JAVA = """\
public class HomeScreen {
    public void openSettingsMenu() {}
    public void scrollToRow(int row) {}
}
"""


@pytest.fixture(autouse=True)
def offline_environment(monkeypatch):
    """Keep tests off the network and away from user configuration."""
    for var in (
        "EMBEDDING_API_KEY",
        "OPENROUTER_API_KEY",
        "OPENROUTER_API_KEYS",
        "ACTION_KB_PERSIST_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    yield
    ObservabilityManager.reset()


@pytest.fixture
def player_screen_source():
    return PLAYER_SCREEN_JAVA


@pytest.fixture
def embedder():
    return FallbackEmbeddingProvider()


@pytest.fixture
def kb_config():
    return KnowledgeBaseConfig(embedding=EmbeddingConfig(api_key=None))


@pytest.fixture
def kb(kb_config, embedder):
    """In-memory knowledge base with the deterministic embedder."""
    return ActionKnowledgeBase(kb_config, embedder=embedder)


@pytest.fixture
def play_button_action():
    return AtomicAction(
        id="a1",
        action_name="click_play_button",
        method_name="clickPlayButton",
        class_name="PlayerScreen",
        keywords=["click", "play", "button"],
    )


@pytest.fixture
def page_object_repo(tmp_path) -> Path:
    """
    Small automation repository:
    - ctvscreens/pplus/PlayerScreen.java (eligible)
    - mobilescreens/plutotv/HomeScreen.java (eligible)
    - utils/Helper.java (not a page object)
    - node_modules/.../IgnoredScreen.java and .hidden/HiddenScreen.java (pruned)
    """
    root = tmp_path / "repo"

    player = root / "src" / "ui" / "ctvscreens" / "pplus" / "PlayerScreen.java"
    player.parent.mkdir(parents=True)
    player.write_text(PLAYER_SCREEN_JAVA, encoding="utf-8")

    home = root / "src" / "ui" / "mobilescreens" / "plutotv" / "HomeScreen.java"
    home.parent.mkdir(parents=True)
    home.write_text(HOME_SCREEN_JAVA, encoding="utf-8")

    helper = root / "src" / "utils" / "Helper.java"
    helper.parent.mkdir(parents=True)
    helper.write_text("public class Helper { public void clickAnything() {} }", encoding="utf-8")

    for skipped in ("node_modules/pkg", ".hidden", "build"):
        path = root / skipped / "IgnoredScreen.java"
        path.parent.mkdir(parents=True)
        path.write_text("public class IgnoredScreen { public void clickIgnored() {} }")

    return root
