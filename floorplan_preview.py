"""SVG preview of a compiled floor plan, optionally rasterised with cairosvg."""

from __future__ import annotations
from typing import List
from xml.sax.saxutils import escape, quoteattr

from floorplan_compiler import CompiledModel, StylesheetGenerator, format_number

try:
    import cairosvg
    HAS_CAIROSVG = True
except (ImportError, OSError):
    # OSError: the wheel imports but libcairo is missing
    HAS_CAIROSVG = False


class PreviewGenerator:
    """Draws the same geometry the stylesheet positions, in plain SVG."""

    STYLES = {
        'canvas': {'fill': '#fafafa', 'stroke': 'none'},
        'room': {'fill': 'rgba(255, 255, 255, 0.9)', 'stroke': '#333'},
        'window': {'fill': '#bbdefb', 'stroke': '#1976d2'},
        'wall': {'fill': '#333', 'stroke': 'none'},
        'door': {'fill': 'white', 'stroke': '#4080ff'},
    }
    WALL_THICKNESS = 4

    def __init__(self, model: CompiledModel):
        self.model = model
        self.u = model.scale

    def px(self, value: float) -> str:
        return format_number(value * self.u)

    def svg(self) -> str:
        w = self.px(self.model.canvas.cols)
        h = self.px(self.model.canvas.rows)
        lines: List[str] = [
            f'<?xml version="1.0"?>\n<svg width="{w}" height="{h}" xmlns="http://www.w3.org/2000/svg">',
            '<style>text{font:14px system-ui, sans-serif}</style>',
        ]
        lines.extend(self._grid())
        st = self.STYLES['canvas']
        lines.append(f'<rect x="0" y="0" width="{w}" height="{h}" fill="{st["fill"]}"/>')
        if self.model.grids:
            lines.append(f'<rect x="0" y="0" width="{w}" height="{h}" fill="url(#grid)"/>')

        lines.append('<g id="rooms">')
        for room in self.model.rooms:
            is_window = room.label == StylesheetGenerator.WINDOW_LABEL
            st = self.STYLES['window' if is_window else 'room']
            x, y = self.px(room.x), self.px(room.y)
            rw, rh = self.px(room.w), self.px(room.h)
            lines.append(f'<rect id={quoteattr(room.id)} x="{x}" y="{y}" width="{rw}" height="{rh}" '
                         f'fill="{st["fill"]}" stroke="{st["stroke"]}" stroke-width="2"/>')
            if room.label and not is_window:
                cx = self.px(room.x + room.w / 2)
                cy = self.px(room.y + room.h / 2)
                lines.append(f'<text x="{cx}" y="{cy}" text-anchor="middle" '
                             f'dominant-baseline="middle" fill="#333">{escape(room.label)}</text>')
        lines.append('</g>')

        lines.append('<g id="walls">')
        st = self.STYLES['wall']
        half = self.WALL_THICKNESS / 2
        for wall in self.model.walls:
            x, y = self.px(wall.x1), self.px(wall.y1)
            lines.append(f'<rect x="{x}" y="{format_number(wall.y1 * self.u - half)}" '
                         f'width="{self.px(wall.length)}" height="{self.WALL_THICKNESS}" fill="{st["fill"]}" '
                         f'transform="rotate({format_number(wall.angle)} {x} {y})"/>')
        lines.append('</g>')

        lines.append('<g id="doors">')
        st = self.STYLES['door']
        for door in self.model.doors:
            x, y = self.px(door.x1), self.px(door.y1)
            top = format_number(door.y1 * self.u - door.width * self.u / 2)
            lines.append(f'<rect x="{x}" y="{top}" width="{self.px(door.length)}" height="{self.px(door.width)}" '
                         f'fill="{st["fill"]}" stroke="{st["stroke"]}" stroke-width="2" '
                         f'transform="rotate({format_number(door.angle)} {x} {y})"/>')
        lines.append('</g>')

        lines.append('</svg>')
        return '\n'.join(lines)

    def _grid(self) -> List[str]:
        if not self.model.grids:
            return []
        grid = self.model.grids[0]
        color = grid.color or StylesheetGenerator.DEFAULT_GRID_COLOR
        alpha = grid.alpha if grid.alpha is not None else StylesheetGenerator.DEFAULT_GRID_ALPHA
        sx, sy = self.px(grid.sx), self.px(grid.sy)
        paint = f'stroke="{color}" stroke-opacity="{format_number(alpha)}" stroke-width="1"'

        lines = ['<defs>',
                 f'<pattern id="grid" width="{sx}" height="{sy}" patternUnits="userSpaceOnUse">']
        if grid.mode == 'dotted':
            lines.append(f'<circle cx="0" cy="0" r="1" fill="{color}" fill-opacity="{format_number(alpha)}"/>')
        if grid.mode in ('grid', 'lines', 'vlines'):
            lines.append(f'<line x1="0" y1="0" x2="0" y2="{sy}" {paint}/>')
        if grid.mode in ('grid', 'lines', 'hlines'):
            lines.append(f'<line x1="0" y1="0" x2="{sx}" y2="0" {paint}/>')
        lines.extend(['</pattern>', '</defs>'])
        return lines

    def png(self, svg_content: str, path, scale: float = 2):
        if not HAS_CAIROSVG:
            raise RuntimeError("cairosvg not installed")
        cairosvg.svg2png(bytestring=svg_content.encode(), write_to=str(path), scale=scale)
