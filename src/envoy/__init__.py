"""Static-proxy (Envoy) backend compiler."""

from .compiler import compile_envoy, compile_scope

__all__ = ["compile_envoy", "compile_scope"]
