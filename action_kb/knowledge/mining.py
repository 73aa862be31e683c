"""
Repository Mining Pipeline

Bootstraps atomic actions from a tree of page-object source files:
- Walks the tree, pruning hidden, build and dependency directories
- Extracts the class name and public method signatures of each file
- Derives platform and brand from path fragments
- Builds action names, keywords and target screens from identifiers

Mining only produces AtomicAction entities; storing them is the knowledge
base's job, so one failing file or write never aborts the pass.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from action_kb.core.config import MiningConfig
from action_kb.knowledge.vocabulary import (
    keywords_from_method_name,
    method_name_to_action,
    target_screen_from_class,
)
from action_kb.models.actions import AtomicAction, Brand, Platform
from action_kb.models.results import MiningError

logger = logging.getLogger(__name__)

# First matching fragment wins; paths are lower-cased and "/"-prefixed
PLATFORM_FRAGMENTS: List[Tuple[Platform, Tuple[str, ...]]] = [
    (Platform.CTV, ("ctvscreen", "/ctv/")),
    (Platform.MOBILE, ("mobilescreen", "/mobile/")),
    (Platform.WEB, ("webscreen", "webpage", "/web/")),
    (Platform.HTML5, ("html5screen", "/html5/")),
    (Platform.HDMI, ("hdmiscreen", "/hdmi/")),
]

BRAND_FRAGMENTS: List[Tuple[Brand, Tuple[str, ...]]] = [
    (Brand.PPLUS, ("pplus",)),
    (Brand.PLUTOTV, ("plutotv",)),
]

CLASS_PATTERN = re.compile(r"(?:public\s+)?class\s+(\w+)")

METHOD_PATTERN = re.compile(
    r"public\s+"
    r"(?:(?:static|final|synchronized|abstract)\s+)*"
    r"(\w+(?:<[^>]+>)?(?:\[\])*)\s+"
    r"(\w+)\s*\(([^)]*)\)"
)

SKIP_METHOD_PATTERNS = [
    re.compile(r"^get[A-Z]"),
    re.compile(r"^set[A-Z]"),
    re.compile(r"^is[A-Z]"),
    re.compile(r"^has[A-Z]"),
    re.compile(r"^(toString|equals|hashCode|clone|finalize)$"),
]


@dataclass
class MethodSignature:
    name: str
    return_type: str
    parameters: List[str] = field(default_factory=list)


@dataclass
class FileMiningResult:
    """Actions extracted from one source file."""
    path: Path
    relative_path: str
    class_name: Optional[str]
    methods_found: int = 0
    actions: List[AtomicAction] = field(default_factory=list)


def split_parameters(raw: str) -> List[str]:
    """Split a parameter list at commas outside generic brackets."""
    params: List[str] = []
    depth = 0
    current = []
    for char in raw:
        if char == "<":
            depth += 1
        elif char == ">":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            params.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    params.append("".join(current).strip())
    return [p for p in params if p]


def detect_platform_and_brand(relative_path: str) -> Tuple[Optional[Platform], Optional[Brand]]:
    """
    Platform and brand from path fragments.

    ui/ctvscreens/pplus/PlayerScreen.java -> (ctv, pplus)
    screens/PlayerScreen.java -> (None, None)
    """
    path = "/" + relative_path.replace("\\", "/").lower().lstrip("/")

    platform = next(
        (p for p, fragments in PLATFORM_FRAGMENTS if any(f in path for f in fragments)),
        None,
    )
    brand = next(
        (b for b, fragments in BRAND_FRAGMENTS if any(f in path for f in fragments)),
        None,
    )
    return platform, brand


def extract_class_name(content: str) -> Optional[str]:
    match = CLASS_PATTERN.search(content)
    return match.group(1) if match else None


def extract_methods(content: str) -> List[MethodSignature]:
    return [
        MethodSignature(
            name=match.group(2),
            return_type=match.group(1),
            parameters=split_parameters(match.group(3)),
        )
        for match in METHOD_PATTERN.finditer(content)
    ]


def should_skip_method(method_name: str) -> bool:
    """Accessors and standard object methods are not actions."""
    return any(pattern.search(method_name) for pattern in SKIP_METHOD_PATTERNS)


def action_id(class_name: str, method_name: str,
              platform: Optional[Platform] = None, brand: Optional[Brand] = None) -> str:
    """method_[platform_][brand_]<Class>_<method>"""
    parts = ["method"]
    if platform:
        parts.append(platform.value)
    if brand:
        parts.append(brand.value)
    parts.extend([class_name, method_name])
    return "_".join(parts)


class RepositoryMiner:
    """Extracts atomic actions from page-object source files."""

    def __init__(self, config: Optional[MiningConfig] = None):
        self.config = config or MiningConfig()

    def is_skipped_directory(self, name: str) -> bool:
        return name.startswith(".") or name in self.config.skip_directories

    def is_eligible_file(self, name: str) -> bool:
        if name.startswith("."):
            return False
        if not any(name.endswith(suffix) for suffix in self.config.file_suffixes):
            return False
        return any(marker in name for marker in self.config.page_object_markers)

    def iter_source_files(
        self,
        root: Path,
        on_error: Optional[Callable[[MiningError], None]] = None,
    ) -> Iterator[Path]:
        """Eligible files under root in a stable walk order."""

        def report(error: OSError) -> None:
            logger.warning(f"Cannot scan {error.filename}: {error}")
            if on_error is not None:
                on_error(MiningError(path=str(error.filename or root), error=str(error)))

        if not Path(root).is_dir():
            report(NotADirectoryError(20, "Not a directory", str(root)))
            return

        for dirpath, dirnames, filenames in os.walk(root, onerror=report):
            dirnames[:] = sorted(d for d in dirnames if not self.is_skipped_directory(d))
            for name in sorted(filenames):
                if self.is_eligible_file(name):
                    yield Path(dirpath) / name

    def mine_file(self, path: Path, root: Path) -> FileMiningResult:
        """Build atomic actions for one file; raises OSError/ValueError on unreadable input."""
        relative_path = Path(path).relative_to(root).as_posix()
        content = Path(path).read_text(encoding=self.config.encoding)

        class_name = extract_class_name(content)
        result = FileMiningResult(path=Path(path), relative_path=relative_path, class_name=class_name)
        if not class_name:
            return result

        platform, brand = detect_platform_and_brand(relative_path)
        target_screen = target_screen_from_class(class_name)
        methods = extract_methods(content)
        result.methods_found = len(methods)

        for method in methods:
            if should_skip_method(method.name):
                continue
            result.actions.append(AtomicAction(
                id=action_id(class_name, method.name, platform, brand),
                action_name=method_name_to_action(method.name),
                method_name=method.name,
                class_name=class_name,
                file_path=str(path),
                relative_path=relative_path,
                platform=platform,
                brand=brand,
                return_type=method.return_type,
                parameters=method.parameters,
                keywords=keywords_from_method_name(method.name),
                target_screen=target_screen,
                confidence=self.config.default_confidence,
            ))

        return result

    def iter_file_actions(
        self,
        root: Path,
        errors: Optional[List[MiningError]] = None,
    ) -> Iterator[FileMiningResult]:
        """Mine every eligible file, recording per-file failures in ``errors``."""
        root = Path(root)
        errors = errors if errors is not None else []

        for path in self.iter_source_files(root, on_error=errors.append):
            try:
                result = self.mine_file(path, root)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to mine {path}: {e}")
                errors.append(MiningError(path=str(path), error=str(e)))
                continue
            yield result

    def mine(self, root: Path) -> Tuple[List[FileMiningResult], List[MiningError]]:
        errors: List[MiningError] = []
        results = list(self.iter_file_actions(root, errors))
        return results, errors


__all__ = [
    "PLATFORM_FRAGMENTS",
    "BRAND_FRAGMENTS",
    "MethodSignature",
    "FileMiningResult",
    "RepositoryMiner",
    "action_id",
    "detect_platform_and_brand",
    "extract_class_name",
    "extract_methods",
    "should_skip_method",
    "split_parameters",
]
