"""
State manager for pyPrView.

Handles saving and loading application state in a hierarchical JSON format.
The state file is human-readable and can be edited manually if needed.
"""

import datetime
import json
from copy import deepcopy
from pathlib import Path
from typing import Dict, Any, Optional

CONFIG_HEADER = '_pyprview_config'


def get_default_state_file() -> Path:
    """
    Get the default state file path.

    Returns the path to ~/.pyprview/state.json
    """
    home = Path.home()
    state_dir = home / '.pyprview'
    state_dir.mkdir(exist_ok=True)
    return state_dir / 'state.json'


class StateManager:
    """
    Manages application state for pyPrView.

    The state is stored in a hierarchical JSON structure:
    {
        "version": "1.0",
        "files": { ... },
        "pr_viewer": { ... }
    }

    Each tool can have its own section in the state file.
    """

    # Default state for the entire application
    DEFAULT_STATE = {
        "version": "1.0",
        "files": {
            "last_folder": "",
        },
        "pr_viewer": {
            "schema_version": 1,
            # Grid (nm, nm⁻¹)
            "r_max": 100.0,
            "n_r": 1000,
            "q_min": 0.005,
            "q_max": 0.4,
            "n_q": 300,
            # Defaults for new nodes / slider values
            "gui_d": 2.0,
            "gui_alpha": 0.70,
            "gui_dir": 1,
            # Display
            "unit_mode": "nm",         # 'nm' | 'A'
            "iq_plot_mode": "log",     # 'log' | 'linear'
            # GNOM-style scale fit
            "auto_gnom_scale": True,
            "gnom_use_background": False,
            "gnom_q_min": None,        # nm⁻¹, None = full overlap
            "gnom_q_max": None,
            "gnom_min_points": 20,
            "iq_scale_log": 0.0,
            # Structure loaded once at start-up (relative to the working dir)
            "default_structure": "3V03.pdb",
            "atom_name": "CA",
            # None → seed the four default nodes
            "nodes": None,
        },
    }

    def __init__(self, state_file: Optional[Path] = None):
        """
        Initialize the state manager.

        Args:
            state_file: Path to state file. If None, uses default location.
        """
        self.state_file = Path(state_file) if state_file else get_default_state_file()
        self.state = deepcopy(self.DEFAULT_STATE)
        self.load()

    def load(self) -> bool:
        """
        Load state from file.

        Returns:
            True if state was loaded, False if using defaults
        """
        if not self.state_file.exists():
            print(f"State file not found: {self.state_file}")
            print("Using default state")
            return False

        try:
            with open(self.state_file, 'r') as f:
                loaded_state = json.load(f)

            # Merge loaded state with defaults (in case new fields were added)
            self.state = self._merge_state(self.DEFAULT_STATE, loaded_state)
            self._migrate_state()
            print(f"Loaded state from: {self.state_file}")
            return True

        except Exception as e:
            print(f"Error loading state file: {e}")
            print("Using default state")
            self.state = deepcopy(self.DEFAULT_STATE)
            return False

    def save(self) -> bool:
        """
        Save current state to file.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.state_file, 'w') as f:
                json.dump(self.state, f, indent=2)

            print(f"Saved state to: {self.state_file}")
            return True

        except Exception as e:
            print(f"Error saving state file: {e}")
            return False

    def get(self, tool: str, key: Optional[str] = None, default: Any = None) -> Any:
        """
        Get state for a tool or specific key.

        Args:
            tool: Tool name (e.g., "pr_viewer")
            key: Optional key within tool state
            default: Default value if not found

        Returns:
            State value or default
        """
        tool_state = self.state.get(tool, {})

        if key is None:
            return tool_state

        return tool_state.get(key, default)

    def set(self, tool: str, key: str, value: Any):
        """Set one key of a tool section."""
        if tool not in self.state:
            self.state[tool] = {}

        self.state[tool][key] = value

    def update(self, tool: str, state_dict: Dict[str, Any]):
        """Update multiple state values for a tool."""
        if tool not in self.state:
            self.state[tool] = {}

        self.state[tool].update(state_dict)

    def reset(self, tool: Optional[str] = None):
        """
        Reset state to defaults.

        Args:
            tool: Tool to reset. If None, resets all tools.
        """
        if tool is None:
            self.state = deepcopy(self.DEFAULT_STATE)
        elif tool in self.DEFAULT_STATE:
            self.state[tool] = deepcopy(self.DEFAULT_STATE[tool])

    def export_tool_state(self, tool: str, export_path: Path, version: str = '') -> bool:
        """
        Write one tool section into a pyPrView config file.

        An existing config file keeps its other sections and its creation
        date; files without the ``_pyprview_config`` header are refused.

        Returns:
            True if successful, False otherwise
        """
        export_path = Path(export_path)
        config = {}
        try:
            if export_path.exists():
                with open(export_path, 'r') as f:
                    config = json.load(f)
                if CONFIG_HEADER not in config:
                    print(f"Not a pyPrView configuration file: {export_path}")
                    return False

            now = datetime.datetime.now().isoformat(timespec='seconds')
            if CONFIG_HEADER not in config:
                config[CONFIG_HEADER] = {
                    'file_type': 'pyPrView Configuration File',
                    'version': version,
                    'created': now,
                }
            config[CONFIG_HEADER]['modified'] = now
            config[CONFIG_HEADER]['written_by'] = f"pyPrView {version}".strip()
            config[tool] = deepcopy(self.state.get(tool, {}))

            with open(export_path, 'w') as f:
                json.dump(config, f, indent=2)

            print(f"Exported {tool} state to: {export_path}")
            return True

        except Exception as e:
            print(f"Error exporting state: {e}")
            return False

    def import_tool_state(self, tool: str, import_path: Path) -> bool:
        """
        Import one tool section from a pyPrView config file.

        Returns:
            True if successful, False otherwise
        """
        try:
            config = load_config(import_path)
            if config is None or tool not in config:
                print(f"No '{tool}' section in: {import_path}")
                return False

            self.state[tool] = self._merge_state(self.DEFAULT_STATE.get(tool, {}),
                                                 config[tool])
            print(f"Imported {tool} state from: {import_path}")
            return True

        except Exception as e:
            print(f"Error importing state: {e}")
            return False

    def _migrate_state(self):
        """Normalise values written by older or hand-edited state files."""
        viewer = self.state.get('pr_viewer', {})
        if viewer.get('unit_mode') in ('Å', 'Angstrom', 'angstrom'):
            viewer['unit_mode'] = 'A'
        if viewer.get('iq_plot_mode') not in ('log', 'linear'):
            viewer['iq_plot_mode'] = self.DEFAULT_STATE['pr_viewer']['iq_plot_mode']
        viewer['schema_version'] = self.DEFAULT_STATE['pr_viewer']['schema_version']

    def _merge_state(self, default: Dict, loaded: Dict) -> Dict:
        """
        Merge loaded state with default state.

        This ensures that new fields in DEFAULT_STATE are present even
        if they weren't in the loaded state file.
        """
        merged = deepcopy(default)

        for key, value in loaded.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_state(merged[key], value)
            else:
                merged[key] = value

        return merged


def load_config(config_file) -> Optional[Dict]:
    """Load a pyPrView JSON config file.  Returns None on failure."""
    config_file = Path(config_file)
    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
    except Exception as e:
        print(f"[pyprview] Cannot read config file '{config_file}': {e}")
        return None

    if CONFIG_HEADER not in config:
        print(f"[pyprview] '{config_file}' is not a pyPrView configuration file "
              f"(missing '{CONFIG_HEADER}' header).")
        return None

    return config
