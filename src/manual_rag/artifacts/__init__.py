"""Artifacts — placeholder-then-repair handling for derived images (QR codes)."""

from manual_rag.artifacts.qr import ArtifactGenerator, QRCodeGenerator, build_chat_url
from manual_rag.artifacts.repair import ArtifactRepairQueue, RepairSweepReport

__all__ = [
    "ArtifactGenerator",
    "ArtifactRepairQueue",
    "QRCodeGenerator",
    "RepairSweepReport",
    "build_chat_url",
]
