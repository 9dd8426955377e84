from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..blob.codec import KeyFileConfig
from ..host import KeyModule


@dataclass
class SubgraphContext:
    """State carried across one traversal of the OpenSSL subgraph."""

    key_mod: Optional[KeyModule] = None
    data: KeyFileConfig = field(default_factory=KeyFileConfig)
    destroyed: bool = False

    def destroy(self) -> None:
        self.data.wipe()
        self.key_mod = None
        self.destroyed = True
