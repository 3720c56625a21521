from pathlib import PurePosixPath

# Binary assets and generated lockfiles: nothing useful to annotate.
NON_CODE_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".bmp",
        ".pdf",
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        ".mp4", ".mp3", ".wav", ".ogg",
        ".zip", ".tar", ".gz", ".rar", ".7z",
        ".lock",
    }
)  # fmt: skip


def is_code_file(file_name: str) -> bool:
    return PurePosixPath(file_name.lower()).suffix not in NON_CODE_EXTENSIONS
