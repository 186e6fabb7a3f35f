from os.path import normpath
from pathlib import Path
from typing import Optional, Union


def path_absolute(path: Path) -> Path:
    # NOTE: Makes the path absolute without resolving symlinks
    if path.is_absolute():
        return Path(normpath(str(path)))
    return Path(normpath(str(Path.cwd() / path)))


def normalize_user_given_path(path: Union[str, Path, None]) -> Optional[Path]:
    if path is None:
        return None
    if isinstance(path, str):
        if path.strip() == '':
            return None
        path = Path(path)
    return path.expanduser()
