"""
State management for pyPrView.

This module handles saving and loading application state across sessions.
"""

from .state_manager import StateManager, get_default_state_file, load_config

__all__ = ['StateManager', 'get_default_state_file', 'load_config']
