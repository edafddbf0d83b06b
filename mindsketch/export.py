"""Export functionality for MindSketch mind maps."""

import math
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Tuple, Union

import cairo

from mindsketch.outline import outline_lines
from mindsketch.session import MindMapSession, NodeView

# (x, y, width, height) of a node box
Box = Tuple[float, float, float, float]


def parse_hex_color(value: str, default=(1.0, 1.0, 1.0)) -> Tuple[float, float, float]:
    """Turn ``#rgb`` / ``#rrggbb`` into a cairo RGB triple."""
    if not value or not value.startswith("#"):
        return default
    digits = value[1:]
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    if len(digits) != 6:
        return default
    try:
        return tuple(int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    except ValueError:
        return default


class MindMapExporter:
    """Renders the current session projection to PNG, PDF or Markdown."""

    COLORS = {
        'surface': (1.0, 1.0, 1.0),
        'border_subtle': (0.796, 0.835, 0.882),  # #cbd5e1
        'text_primary': (0.059, 0.090, 0.165),
        'text_secondary': (0.392, 0.455, 0.545),
        'edge': (0.580, 0.639, 0.722),
    }

    NODE_PADDING = 8
    NODE_MIN_WIDTH = 160
    NODE_MAX_WIDTH = 260
    NODE_HEIGHT = 40
    COLOR_STRIP = 3

    def __init__(self, session: MindMapSession):
        self.session = session

    def _calc_size(self, view: NodeView) -> Tuple[float, float]:
        text_width = len(view.title) * 8 + self.NODE_PADDING * 2
        width = max(self.NODE_MIN_WIDTH, min(self.NODE_MAX_WIDTH, text_width))
        return width, self.NODE_HEIGHT

    def _boxes(self, views: List[NodeView]) -> Dict[str, Box]:
        boxes = {}
        for view in views:
            w, h = self._calc_size(view)
            boxes[view.id] = (view.x, view.y, w, h)
        return boxes

    def _render(self, cr, views: List[NodeView], boxes: Dict[str, Box]):
        self._draw_connections(cr, boxes)
        for view in views:
            self._draw_node(cr, view, boxes[view.id])

    def export_png(self, filepath: Union[str, Path], scale: float = 2.0,
                   transparent: bool = False) -> bool:
        """Export the visible map to a PNG image."""
        mind_map = self.session.map
        if mind_map is None:
            return False
        views = self.session.node_views()
        boxes = self._boxes(views)

        # Calculate bounds
        min_x = min(b[0] for b in boxes.values())
        max_x = max(b[0] + b[2] for b in boxes.values())
        min_y = min(b[1] for b in boxes.values())
        max_y = max(b[1] + b[3] for b in boxes.values())

        padding = 50
        width = int((max_x - min_x + padding * 2) * scale)
        height = int((max_y - min_y + padding * 2) * scale)

        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)
        cr.scale(scale, scale)
        cr.translate(-min_x + padding, -min_y + padding)

        if not transparent:
            cr.set_source_rgb(*parse_hex_color(mind_map.bg_color))
            cr.paint()

        self._render(cr, views, boxes)
        surface.write_to_png(str(filepath))
        return True

    def export_pdf(self, filepath: Union[str, Path], page_size: str = "A4") -> bool:
        """Export the visible map to a PDF page."""
        mind_map = self.session.map
        if mind_map is None:
            return False
        views = self.session.node_views()
        boxes = self._boxes(views)

        # Page sizes in points (72 points = 1 inch)
        PAGE_SIZES = {
            "A4": (595, 842),
            "Letter": (612, 792),
        }

        min_x = min(b[0] for b in boxes.values())
        max_x = max(b[0] + b[2] for b in boxes.values())
        min_y = min(b[1] for b in boxes.values())
        max_y = max(b[1] + b[3] for b in boxes.values())

        map_width = max_x - min_x + 100
        map_height = max_y - min_y + 100

        if page_size == "Auto":
            width, height = map_width, map_height
            scale = 1.0
        else:
            width, height = PAGE_SIZES.get(page_size, PAGE_SIZES["A4"])
            # Scale to fit
            scale = min((width - 40) / map_width, (height - 40) / map_height, 1.0)

        surface = cairo.PDFSurface(str(filepath), width, height)
        cr = cairo.Context(surface)
        surface.set_metadata(cairo.PDF_METADATA_TITLE, mind_map.title)
        surface.set_metadata(cairo.PDF_METADATA_CREATE_DATE,
                             datetime.now().replace(microsecond=0).isoformat())

        cr.set_source_rgb(*parse_hex_color(mind_map.bg_color))
        cr.paint()

        if page_size == "Auto":
            cr.translate(-min_x + 50, -min_y + 50)
        else:
            cr.translate(width / 2, height / 2)
            cr.scale(scale, scale)
            cr.translate(-(min_x + max_x) / 2, -(min_y + max_y) / 2)

        self._render(cr, views, boxes)
        surface.finish()
        return True

    def export_markdown(self, filepath: Union[str, Path],
                        include_descriptions: bool = True) -> bool:
        """Export the whole tree (collapsed branches included) as an outline."""
        mind_map = self.session.map
        if mind_map is None:
            return False
        lines = outline_lines(mind_map, include_descriptions)
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write("\n".join(lines) + "\n")
        return True

    def _draw_connections(self, cr, boxes: Dict[str, Box]):
        """Draw bezier connections between visible parent/child pairs."""
        cr.set_source_rgb(*self.COLORS['edge'])
        cr.set_line_width(1.5)
        cr.set_line_cap(cairo.LINE_CAP_ROUND)
        for edge in self.session.edge_views():
            px, py, pw, ph = boxes[edge.source]
            cx, cy, cw, ch = boxes[edge.target]
            start_x, start_y = px + pw / 2, py + ph / 2
            end_x, end_y = cx + cw / 2, cy + ch / 2
            ctrl = (end_x - start_x) * 0.4
            cr.move_to(start_x, start_y)
            cr.curve_to(start_x + ctrl, start_y, end_x - ctrl, end_y, end_x, end_y)
            cr.stroke()

    def _draw_node(self, cr, view: NodeView, box: Box):
        """Draw a single node."""
        x, y, w, h = box

        self._draw_rounded_rect(cr, x, y, w, h, 10)
        cr.set_source_rgb(*self.COLORS['surface'])
        cr.fill_preserve()
        cr.set_source_rgb(*self.COLORS['border_subtle'])
        cr.set_line_width(1)
        cr.stroke()

        # Colour strip along the bottom edge
        if view.color:
            cr.rectangle(x + 2, y + h - self.COLOR_STRIP - 1, w - 4, self.COLOR_STRIP)
            cr.set_source_rgb(*parse_hex_color(view.color))
            cr.fill()

        cr.set_source_rgb(*self.COLORS['text_primary'])
        cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL,
                            cairo.FONT_WEIGHT_BOLD if view.is_root else cairo.FONT_WEIGHT_NORMAL)
        cr.set_font_size(14 if view.is_root else 13)
        extents = cr.text_extents(view.title)
        cr.move_to(x + self.NODE_PADDING, y + h / 2 + extents.height / 2 - 2)
        cr.show_text(view.title)

        if view.collapsed:
            cr.set_source_rgb(*self.COLORS['text_secondary'])
            cr.move_to(x + w - self.NODE_PADDING - 8, y + h / 2 + 4)
            cr.show_text("+")

    def _draw_rounded_rect(self, cr, x, y, w, h, radius):
        """Draw a rounded rectangle path."""
        cr.new_path()
        cr.arc(x + w - radius, y + radius, radius, -math.pi / 2, 0)
        cr.arc(x + w - radius, y + h - radius, radius, 0, math.pi / 2)
        cr.arc(x + radius, y + h - radius, radius, math.pi / 2, math.pi)
        cr.arc(x + radius, y + radius, radius, math.pi, 3 * math.pi / 2)
        cr.close_path()
