"""kiln Template package — loaded template instances ready for rendering."""

from kiln.template.core import Template

__all__ = ["Template"]
