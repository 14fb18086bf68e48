from collections.abc import Mapping
from hashlib import sha256
from pathlib import Path

from pulumi import AssetArchive, FileAsset

from authgate.exceptions import PlatformError

from .constants import LAMBDA_EXCLUDED_DIRS, LAMBDA_EXCLUDED_EXTENSIONS, LAMBDA_EXCLUDED_FILES


def collect_code_files(code_path: str, handler_file: str, single_file: bool) -> dict[str, Path]:
    """Map archive paths to the files that make up a function's code.

    Handles both single file and folder-based functions.
    """
    folder = Path(code_path)
    handler = Path(handler_file)

    if single_file:
        if not handler.exists():
            raise PlatformError(f"Handler file not found: {handler}")
        return {handler.name: handler}

    if not folder.is_dir():
        raise PlatformError(f"Folder not found: {folder}")
    if not handler.exists():
        raise PlatformError(f"Handler file not found in folder: {handler}")

    return {
        str(file_path.relative_to(folder)): file_path
        for file_path in sorted(folder.rglob("*"))
        if not (
            file_path.is_dir()
            or file_path.name in LAMBDA_EXCLUDED_FILES
            or file_path.parent.name in LAMBDA_EXCLUDED_DIRS
            or file_path.suffix in LAMBDA_EXCLUDED_EXTENSIONS
        )
    }


def create_lambda_archive(files: Mapping[str, Path]) -> AssetArchive:
    return AssetArchive({name: FileAsset(str(path)) for name, path in files.items()})


def code_hash(files: Mapping[str, Path]) -> str:
    """Stable hash of archive paths and file contents."""
    digest = sha256()
    for name in sorted(files):
        digest.update(name.encode())
        digest.update(files[name].read_bytes())
    return digest.hexdigest()
