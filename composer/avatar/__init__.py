"""
Procedural avatar: state machine, pure steppers and frame drawing.
"""
from composer.avatar.engine import AvatarEngine
from composer.avatar.render import draw_avatar
from composer.avatar.states import MAX_PARTICLES, STATE_CONFIGS, AvatarMode

__all__ = ["AvatarEngine", "AvatarMode", "MAX_PARTICLES", "STATE_CONFIGS", "draw_avatar"]
