"""Routing-CRD (Contour HTTPProxy) backend compiler."""

from .compiler import compile_contour, compile_listener

__all__ = ["compile_contour", "compile_listener"]
