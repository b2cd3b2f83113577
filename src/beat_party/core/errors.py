class BeatPartyError(Exception):
    """Base for failures raised inside the low-level loaders and parsers."""

class SongDataError(BeatPartyError):
    """The music API returned a payload we can't use."""

class ClipLoadError(BeatPartyError):
    """A dance clip's metadata could not be read, or measured zero length."""
