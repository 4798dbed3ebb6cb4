"""
Composition defaults and request resolution.
Default values: single source is defaults.DEFAULT_CONFIG; use resolve_config({}) for a resolved default config.
"""
from composer.params.defaults import DEFAULT_CONFIG, DEFAULT_CAPTION_STYLE, DEFAULT_DUCKING, DEFAULT_AVATAR
from composer.params.resolve import resolve_config, resolve_request

__all__ = ["DEFAULT_CONFIG", "DEFAULT_CAPTION_STYLE", "DEFAULT_DUCKING", "DEFAULT_AVATAR", "resolve_config", "resolve_request"]
