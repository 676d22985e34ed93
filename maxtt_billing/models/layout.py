from typing import Optional

from pydantic import BaseModel, Field

from ..core.enums import BlockKind, TaxMode


class TableRow(BaseModel):
    label: str
    value: str


class LayoutBlock(BaseModel):
    """One positioned region of the printed invoice. Units are PDF points."""

    kind: BlockKind
    title: str = ""
    lines: list[str] = Field(default_factory=list)
    rows: list[TableRow] = Field(default_factory=list)
    left_pt: float
    top_pt: float = 0
    width_pt: float
    height_pt: float = 0
    font_pt: float = 10.5
    line_height_pt: float = 12
    image_ref: Optional[str] = None

    @property
    def bottom_pt(self) -> float:
        return self.top_pt + self.height_pt


class LayoutMetrics(BaseModel):
    """Type sizes and spacing the planner settled on."""

    text_font_pt: float = 10.5
    text_line_height_pt: float = 12
    zone_gap_pt: float = 14
    signature_box_height_pt: float = 64
    tight_steps: int = 0
    signature_shrunk: bool = False

    @property
    def tight(self) -> bool:
        return self.tight_steps > 0 or self.signature_shrunk


class InvoiceDocumentPlan(BaseModel):
    """Everything a renderer needs to draw one invoice page; no arithmetic left to do."""

    invoice_id: Optional[int] = None
    display_code: str
    page_width_pt: float
    page_height_pt: float
    margin_pt: float
    tax_mode: TaxMode
    blocks: list[LayoutBlock]
    metrics: LayoutMetrics
    fits: bool
    watermark_text: Optional[str] = None
    watermark_image: bool = False

    def block(self, kind: BlockKind) -> LayoutBlock | None:
        """First block of a kind, or None."""
        for b in self.blocks:
            if b.kind is kind:
                return b
        return None

    def blocks_of(self, kind: BlockKind) -> list[LayoutBlock]:
        return [b for b in self.blocks if b.kind is kind]
