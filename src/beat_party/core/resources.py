import os

PACKAGE_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def runtime_dir(*parts: str) -> str:
    """Writable scratch space (logs). BEAT_PARTY_RUNTIME overrides ./runtime."""
    base = os.environ.get("BEAT_PARTY_RUNTIME") or os.path.join(os.getcwd(), "runtime")
    p = os.path.join(base, *parts)
    os.makedirs(p, exist_ok=True)
    return p


def clips_dir(*parts: str) -> str:
    """Dance clip metadata shipped with the package, unless BEAT_PARTY_CLIPS_DIR points elsewhere."""
    base = os.environ.get("BEAT_PARTY_CLIPS_DIR") or os.path.join(PACKAGE_ROOT, "assets", "clips")
    return os.path.join(base, *parts)
