"""
File Collector for compliance analysis

Turns files and directories into AnalysisRequest values.

Performance Optimizations:
- Async file I/O with aiofiles (non-blocking)
- Parallel file reads with asyncio.gather
- Semaphore-based concurrency control (prevent fd exhaustion)
- Symlink loop detection
- Timeout for file reads (network mount safety)
"""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import aiofiles

from .common_types import AnalysisRequest, Framework
from .config import AnalyzerConfig


logger = logging.getLogger(__name__)

# Constants for performance tuning
MAX_CONCURRENT_FILE_READS = 50  # Prevent fd exhaustion
FILE_READ_TIMEOUT_SECONDS = 30  # Timeout for slow/network files

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".cs": "csharp",
    ".sql": "sql",
    ".sh": "shell",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".tf": "terraform",
}


def detect_language(path: "Path | str") -> str | None:
    """Guess the language of a file from its extension."""
    return LANGUAGE_BY_EXTENSION.get(Path(path).suffix.lower())


@dataclass
class CollectionResult:
    """Result of file collection."""

    requests: list[AnalysisRequest] = field(default_factory=list)
    total_bytes: int = 0
    skipped_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.requests)

    def get_file_list(self) -> list[str]:
        return [r.file_path for r in self.requests]


class FileCollector:
    """
    Collects source files for compliance analysis.

    Features:
    - Filters by extension
    - Skips common non-code directories
    - Respects file size limits
    - Deterministic output order (sorted by path)
    """

    def __init__(self, config: AnalyzerConfig | None = None):
        self.config = config or AnalyzerConfig()

    def should_skip_directory(self, dir_name: str) -> bool:
        """Check if a directory should be skipped."""
        return any(
            fnmatch.fnmatch(dir_name, pattern)
            for pattern in self.config.skipped_directories
        )

    def should_include_file(self, file_path: Path) -> bool:
        """Check if a file should be included based on extension."""
        return file_path.suffix.lower() in self.config.included_extensions

    async def collect_requests(
        self,
        paths: list[str],
        framework: "Framework | str",
        context: str | None = None,
    ) -> CollectionResult:
        """
        Build one AnalysisRequest per collected file.

        Args:
            paths: Files or directories to collect
            framework: Framework every request is analyzed against
            context: Optional extra context passed to the prompt

        Returns:
            CollectionResult with requests ordered by relative path
        """
        framework = Framework.parse(framework)
        result = CollectionResult()
        semaphore = asyncio.Semaphore(MAX_CONCURRENT_FILE_READS)
        visited_dirs: set[str] = set()

        all_file_paths: list[tuple[Path, Path]] = []  # (file_path, base_dir)
        for path_str in paths:
            path = Path(path_str).resolve()

            if not path.exists():
                result.errors.append(f"Path not found: {path_str}")
                continue

            if path.is_file():
                all_file_paths.append((path, path.parent))
            elif path.is_dir():
                try:
                    for file_path in self._walk_directory(path, visited_dirs):
                        all_file_paths.append((file_path, path))
                except OSError as e:
                    result.errors.append(f"Error walking {path}: {e}")
            else:
                result.errors.append(f"Invalid path type: {path_str}")

        collected = await asyncio.gather(*(
            self._collect_file(file_path, base_dir, semaphore, result)
            for file_path, base_dir in all_file_paths
        ))

        for relative_path, file_path, content in sorted(
            (c for c in collected if c is not None), key=lambda c: c[0]
        ):
            result.requests.append(AnalysisRequest(
                code=content,
                file_path=relative_path,
                framework=framework,
                language=detect_language(file_path),
                context=context,
            ))

        logger.info(
            "Collected %d files (%d skipped, %d errors)",
            result.file_count, len(result.skipped_files), len(result.errors),
        )
        return result

    def _walk_directory(self, directory: Path, visited: set[str]) -> Iterator[Path]:
        """Walk directory tree with symlink loop detection."""
        resolved = str(directory.resolve())
        if resolved in visited:
            return  # Symlink loop detected
        visited.add(resolved)

        try:
            entries = sorted(directory.iterdir())
        except PermissionError:
            logger.warning("Permission denied: %s", directory)
            return

        for item in entries:
            try:
                if item.is_dir():
                    if not self.should_skip_directory(item.name):
                        yield from self._walk_directory(item, visited)
                elif item.is_file() and self.should_include_file(item):
                    yield item
            except OSError as e:
                logger.warning("Skipping %s: %s", item, e)

    async def _collect_file(
        self,
        file_path: Path,
        base_dir: Path,
        semaphore: asyncio.Semaphore,
        result: CollectionResult,
    ) -> tuple[str, Path, str] | None:
        """Read a single file with timeout and concurrency control."""
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self._read_file(file_path, base_dir, result),
                    timeout=FILE_READ_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                result.skipped_files.append(f"{file_path} (read timeout)")
            except FileNotFoundError:
                result.skipped_files.append(f"{file_path} (file not found)")
            except PermissionError:
                result.skipped_files.append(f"{file_path} (permission denied)")
            except OSError as e:
                result.errors.append(f"Error reading {file_path}: {e}")
            return None

    async def _read_file(
        self,
        file_path: Path,
        base_dir: Path,
        result: CollectionResult,
    ) -> tuple[str, Path, str] | None:
        size = file_path.stat().st_size

        if size > self.config.max_file_size_bytes:
            result.skipped_files.append(f"{file_path} (too large: {size:,} bytes)")
            return None

        if size == 0:
            result.skipped_files.append(f"{file_path} (empty file)")
            return None

        content = await self._read_content(file_path)
        if content is None:
            result.skipped_files.append(f"{file_path} (binary file)")
            return None

        try:
            relative_path = file_path.relative_to(base_dir).as_posix()
        except ValueError:
            relative_path = file_path.as_posix()

        result.total_bytes += size
        return relative_path, file_path, content

    async def _read_content(self, file_path: Path) -> str | None:
        """Read file content; None for binary files (NUL bytes)."""
        async with aiofiles.open(file_path, mode="rb") as f:
            raw = await f.read()
        if b"\x00" in raw:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            # latin-1 maps every byte, so legacy text always decodes
            return raw.decode("latin-1")
