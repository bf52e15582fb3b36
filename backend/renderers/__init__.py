from .svg_renderer import format_value, render_svg, tier_color

__all__ = ['format_value', 'render_svg', 'tier_color']
