"""
Highlights - Default colors for the provenance prefixes.

Registered once per editor session. Uses `highlight default` so user
colorschemes can override every group.
"""

import logging
from typing import Dict

from .host import EditorHost
from .models import SourceTag, highlight_group


logger = logging.getLogger(__name__)


HIGHLIGHT_STYLES: Dict[SourceTag, str] = {
    SourceTag.BUF: "ctermfg=Green guifg=#98c379",
    # All MRU kinds share one color
    SourceTag.MRU: "ctermfg=Yellow guifg=#e5c07b",
    SourceTag.MRW: "ctermfg=Yellow guifg=#e5c07b",
    SourceTag.MRR: "ctermfg=Yellow guifg=#e5c07b",
    SourceTag.MRD: "ctermfg=Yellow guifg=#e5c07b",
    SourceTag.REC: "ctermfg=Blue guifg=#61afef",
}


async def register_highlights(host: EditorHost) -> None:
    """Define one highlight group per source tag."""
    for tag, style in HIGHLIGHT_STYLES.items():
        await host.command(f"highlight default {highlight_group(tag)} {style}")
    logger.debug(f"Registered {len(HIGHLIGHT_STYLES)} highlight groups")
