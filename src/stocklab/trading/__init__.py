"""Configuration I/O: JSON run configs and CSV/XLSX sweep tables."""

from .config_io import config_from_dict, config_to_dict, load_backtest_config, load_sweep_configs

__all__ = ["config_from_dict", "config_to_dict", "load_backtest_config", "load_sweep_configs"]
