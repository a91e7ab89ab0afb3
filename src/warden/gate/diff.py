"""Unified diff analysis.

Line-by-line structural counts for the quality gate. No AST parsing: the
analyzer only recognizes declaration shapes, so it stays deterministic,
dependency-free and works on partial diffs.

Recognized declarations:
- Python: ``def``, ``async def``, ``class``, ``import``, ``from ... import``
- JS/TS: ``function``, ``const f = (``, ``export``, ``import ... from``
"""

import re
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from typing import Any

# =============================================================================
# Patterns
# =============================================================================

_PY_DEF = re.compile(r"^(\s*)(?:async\s+)?def\s+\w+")
_JS_FUNCTION = re.compile(r"^(\s*)(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+\w+")
_JS_ARROW = re.compile(r"^(\s*)(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?\(")

_PY_EXPORT = re.compile(r"^(?:async\s+def|def|class)\s+[A-Za-z]\w*")
_JS_EXPORT = re.compile(
    r"^\s*export\s+(?:default\s+)?(?:async\s+)?(?:function|const|let|var|class|interface|type|enum)\b"
)

_IMPORT = re.compile(
    r"^\s*(?:import\s+\S|from\s+[\w.]+\s+import\s)|\brequire\(\s*['\"]"
)

_DUP_MARKER = re.compile(
    r"(?:#|//)\s*\[(?:identical|duplicated?|copy|copied)\b[^\]]*\]", re.IGNORECASE
)
_COPY_PHRASE = re.compile(r"\b(?:second|third|another)\s+copy\b", re.IGNORECASE)

_SOURCE_INSPECT = re.compile(
    r"inspect\.getsource(?:lines)?\s*\("
    r"|\.py['\"]\s*\)?\s*\.read_text\s*\("
    r"|\bopen\(\s*[^)]*\.py['\"]"
    r"|readFileSync\([^)]*\.[jt]sx?['\"]",
    re.IGNORECASE,
)
_TEST_WORD = re.compile(r"test|spec", re.IGNORECASE)
_ASSERTION = re.compile(r"^\s*assert\b|\bassert\w*\s*\(|\bexpect\s*\(")

# `x = 0.25` but not `x == 0.25`, `x >= 0.25`
_HARDCODED_THRESHOLD = re.compile(r"(?<![=!<>])=(?!=)\s*0\.\d{2}")

_TEST_FILE = re.compile(
    r"(?:^|/)(?:tests?/|test_[^/]*\.py$|[^/]*_test\.py$|conftest\.py$|[^/]*\.(?:test|spec)\.[jt]sx?$)"
)

DUPLICATE_WINDOW = 5
"""Lines in a repeated-block window."""

MIN_DISTINCT_IN_WINDOW = 3
"""Windows with fewer distinct lines (closing braces, blanks) are ignored."""


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True, slots=True)
class DiffAnalysis:
    """Structural summary of a unified diff. Never persisted."""

    lines_added: int = 0
    lines_removed: int = 0
    functions_added: int = 0
    functions_removed: int = 0
    functions_changed: int = 0
    exports_added: int = 0
    exports_removed: int = 0
    imports_added: int = 0
    imports_removed: int = 0
    max_function_size: int = 0
    """Longest contiguous added-line run inside one function body."""

    duplication_signals: tuple[str, ...] = ()
    """Duplication introduced by added lines."""

    duplication_removed: tuple[str, ...] = ()
    """Duplication carried by removed lines."""

    files: tuple[str, ...] = ()
    test_files_touched: int = 0
    test_lines_added: int = 0
    source_tests_added: int = 0
    """Added test lines that read source text instead of exercising behavior."""

    source_tests_removed: int = 0
    assertions_added: int = 0
    thresholds_added: int = 0
    """Added non-test lines assigning a literal ``0.xx``."""

    thresholds_removed: int = 0

    @property
    def lines_net(self) -> int:
        return self.lines_added - self.lines_removed

    @property
    def functions_net(self) -> int:
        return self.functions_added - self.functions_removed

    @property
    def exports_net(self) -> int:
        return self.exports_added - self.exports_removed

    @property
    def has_source_tests(self) -> bool:
        return self.source_tests_added > 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["lines_net"] = self.lines_net
        data["duplication_signals"] = list(self.duplication_signals)
        data["duplication_removed"] = list(self.duplication_removed)
        data["files"] = list(self.files)
        return data


# =============================================================================
# Analysis
# =============================================================================


@dataclass(slots=True)
class _Run:
    """An open function body on the added side."""

    kind: str  # "py" or "brace"
    indent: int
    size: int = 1
    depth: int = 0
    opened: bool = False


@dataclass(slots=True)
class _Counts:
    lines_added: int = 0
    lines_removed: int = 0
    functions_added: int = 0
    functions_removed: int = 0
    exports_added: int = 0
    exports_removed: int = 0
    imports_added: int = 0
    imports_removed: int = 0
    max_function_size: int = 0
    test_lines_added: int = 0
    source_tests_added: int = 0
    source_tests_removed: int = 0
    assertions_added: int = 0
    thresholds_added: int = 0
    thresholds_removed: int = 0


def analyze_diff(diff_text: Any) -> DiffAnalysis:
    """Analyze a unified diff.

    Malformed input (not text, undecodable bytes) yields all-zero counts.
    """
    text = as_text(diff_text)
    if not text:
        return DiffAnalysis()

    counts = _Counts()
    files: list[str] = []
    test_files: set[str] = set()
    added_signals: list[str] = []
    removed_signals: list[str] = []

    # Old/new side line sequences per file, for repeated-block detection
    old_side: list[tuple[str, bool]] = []
    new_side: list[tuple[str, bool]] = []
    old_sides: list[list[tuple[str, bool]]] = [old_side]
    new_sides: list[list[tuple[str, bool]]] = [new_side]

    current_file = ""
    run: _Run | None = None
    lines = text.splitlines()

    def close_run() -> None:
        nonlocal run
        if run is not None:
            counts.max_function_size = max(counts.max_function_size, run.size)
            run = None

    for i, line in enumerate(lines):
        # File headers
        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            close_run()
            continue
        if line.startswith("+++ ") and i > 0 and lines[i - 1].startswith("--- "):
            current_file = _header_path(line[4:]) or _header_path(lines[i - 1][4:])
            if current_file:
                files.append(current_file)
                if _TEST_FILE.search(current_file):
                    test_files.add(current_file)
            old_side, new_side = [], []
            old_sides.append(old_side)
            new_sides.append(new_side)
            continue
        if line.startswith(("diff --git", "index ", "new file mode", "deleted file mode", "\\")):
            continue
        if line.startswith("@@"):
            close_run()
            continue

        in_test = current_file in test_files

        if line.startswith("+"):
            content = line[1:]
            counts.lines_added += 1
            new_side.append((content, True))
            if in_test:
                counts.test_lines_added += 1
            run = _track_function(run, content, counts, close_run)
            _count_added(content, counts, in_test, bool(current_file))
            if _DUP_MARKER.search(content) or _COPY_PHRASE.search(content):
                added_signals.append(content.strip())
        elif line.startswith("-"):
            content = line[1:]
            counts.lines_removed += 1
            old_side.append((content, True))
            _count_removed(content, counts, in_test, bool(current_file))
            if _DUP_MARKER.search(content):
                removed_signals.append(content.strip())
        else:
            # Context line (leading space) or a bare blank line
            close_run()
            content = line[1:] if line.startswith(" ") else line
            old_side.append((content, False))
            new_side.append((content, False))

    close_run()

    for side in new_sides:
        added_signals.extend(_repeated_blocks(side))
    for side in old_sides:
        removed_signals.extend(_repeated_blocks(side))

    functions_changed = 0
    if counts.functions_added == counts.functions_removed and counts.functions_added > 0:
        functions_changed = counts.functions_added

    return DiffAnalysis(
        lines_added=counts.lines_added,
        lines_removed=counts.lines_removed,
        functions_added=counts.functions_added,
        functions_removed=counts.functions_removed,
        functions_changed=functions_changed,
        exports_added=counts.exports_added,
        exports_removed=counts.exports_removed,
        imports_added=counts.imports_added,
        imports_removed=counts.imports_removed,
        max_function_size=counts.max_function_size,
        duplication_signals=tuple(added_signals),
        duplication_removed=tuple(removed_signals),
        files=tuple(dict.fromkeys(files)),
        test_files_touched=len(test_files),
        test_lines_added=counts.test_lines_added,
        source_tests_added=counts.source_tests_added,
        source_tests_removed=counts.source_tests_removed,
        assertions_added=counts.assertions_added,
        thresholds_added=counts.thresholds_added,
        thresholds_removed=counts.thresholds_removed,
    )


def as_text(diff_text: Any) -> str:
    """Diff input as text; undecodable or non-text input is empty."""
    if isinstance(diff_text, str):
        return diff_text
    if isinstance(diff_text, (bytes, bytearray)):
        try:
            return bytes(diff_text).decode("utf-8")
        except UnicodeDecodeError:
            return ""
    return ""


def _header_path(raw: str) -> str:
    path = raw.split("\t", 1)[0].strip()
    if path == "/dev/null":
        return ""
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


def _track_function(run: _Run | None, content: str, counts: _Counts, close_run) -> _Run | None:
    """Advance the open function body with one added line."""
    if run is not None:
        if run.kind == "py":
            indent = len(content) - len(content.lstrip())
            if content.strip() and indent <= run.indent:
                close_run()
                run = None
            else:
                run.size += 1
        else:
            run.size += 1
            opens, closes = content.count("{"), content.count("}")
            run.opened = run.opened or opens > 0
            run.depth += opens - closes
            if run.opened and run.depth <= 0:
                close_run()
                run = None

    if m := _PY_DEF.match(content):
        counts.functions_added += 1
        if run is None:
            return _Run(kind="py", indent=len(m.group(1)))
    elif (m := _JS_FUNCTION.match(content)) or (m := _JS_ARROW.match(content)):
        counts.functions_added += 1
        if run is None:
            opens, closes = content.count("{"), content.count("}")
            new_run = _Run(kind="brace", indent=len(m.group(1)), depth=opens - closes, opened=opens > 0)
            if new_run.opened and new_run.depth <= 0:
                # One-line body
                counts.max_function_size = max(counts.max_function_size, 1)
                return None
            return new_run
    return run


def _count_added(content: str, counts: _Counts, in_test: bool, file_known: bool) -> None:
    if _PY_EXPORT.match(content) or _JS_EXPORT.match(content):
        counts.exports_added += 1
    if _IMPORT.search(content):
        counts.imports_added += 1
    if _is_source_test(content, in_test, file_known):
        counts.source_tests_added += 1
    if (in_test or not file_known) and _ASSERTION.search(content):
        counts.assertions_added += 1
    if not in_test and _HARDCODED_THRESHOLD.search(content):
        counts.thresholds_added += 1


def _count_removed(content: str, counts: _Counts, in_test: bool, file_known: bool) -> None:
    if _PY_DEF.match(content) or _JS_FUNCTION.match(content) or _JS_ARROW.match(content):
        counts.functions_removed += 1
    if _PY_EXPORT.match(content) or _JS_EXPORT.match(content):
        counts.exports_removed += 1
    if _IMPORT.search(content):
        counts.imports_removed += 1
    if _is_source_test(content, in_test, file_known):
        counts.source_tests_removed += 1
    if not in_test and _HARDCODED_THRESHOLD.search(content):
        counts.thresholds_removed += 1


def _is_source_test(content: str, in_test: bool, file_known: bool) -> bool:
    if not _SOURCE_INSPECT.search(content):
        return False
    if in_test:
        return True
    # Headerless diffs: fall back to the line itself naming a test
    return not file_known and _TEST_WORD.search(content) is not None


def _repeated_blocks(side: list[tuple[str, bool]]) -> Iterator[str]:
    """Yield one signal per changed block that repeats elsewhere on the same side.

    A block is a window of DUPLICATE_WINDOW non-blank changed lines whose
    normalized text also appears at another, non-overlapping position.
    """
    seq = [(text.strip(), changed) for text, changed in side if text.strip()]
    if len(seq) < DUPLICATE_WINDOW * 2:
        return

    positions: dict[tuple[str, ...], list[int]] = {}
    for i in range(len(seq) - DUPLICATE_WINDOW + 1):
        key = tuple(text for text, _ in seq[i : i + DUPLICATE_WINDOW])
        positions.setdefault(key, []).append(i)

    i = 0
    while i <= len(seq) - DUPLICATE_WINDOW:
        window = seq[i : i + DUPLICATE_WINDOW]
        key = tuple(text for text, _ in window)
        repeated = (
            all(changed for _, changed in window)
            and len(set(key)) >= MIN_DISTINCT_IN_WINDOW
            and any(abs(j - i) >= DUPLICATE_WINDOW for j in positions[key])
        )
        if not repeated:
            i += 1
            continue

        yield f"repeated block: {key[0]}"
        # Skip the rest of this duplicated region
        i += DUPLICATE_WINDOW
        while i <= len(seq) - DUPLICATE_WINDOW:
            nxt = tuple(text for text, _ in seq[i : i + DUPLICATE_WINDOW])
            if not any(abs(j - i) >= DUPLICATE_WINDOW for j in positions[nxt]):
                break
            i += 1
