"""Error taxonomy for the transmission mixer.

Decode and source errors carry the offending source and layer role so the
caller can retry the request with a different asset. Nothing in this
package retries internally.
"""

from __future__ import annotations

from typing import Any, Optional


class TransmixError(Exception):
    """Base class for all mixer errors."""


class DecodeFailure(TransmixError):
    """Voice or layer audio could not be decoded."""

    def __init__(self, source: Any, role: Optional[str] = None, detail: str = "") -> None:
        self.source = source
        self.role = role
        self.detail = detail
        message = f"Failed to decode {role or 'audio'} source {source!s}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SourceUnavailable(TransmixError):
    """A candidate layer source is missing or its duration cannot be probed."""

    def __init__(self, source: Any, role: Optional[str] = None, detail: str = "") -> None:
        self.source = source
        self.role = role
        self.detail = detail
        message = f"Source unavailable for {role or 'layer'}: {source!s}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class GraphConstructionError(TransmixError):
    """The mix graph references an unknown bus or breaks a graph invariant."""


class RenderFailure(TransmixError):
    """The external renderer exited with an error."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class PipelineCancelled(TransmixError):
    """The request was cancelled between pipeline stages."""
