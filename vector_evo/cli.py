"""
CLI module for the vector search.

Handles run configuration loading, validation, and dispatch to the
vectorize workflow.
"""

from typing import Dict, Any, Optional
from pathlib import Path
import yaml

from .config import ConfigValidationError, SearchConfig


def load_run_config(config_path: str) -> Dict[str, Any]:
    """
    Load run configuration from YAML file.

    Args:
        config_path: Path to run configuration YAML file

    Returns:
        Dictionary containing run configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in configuration file: {e}")

    if config is None:
        raise ConfigValidationError("Configuration file is empty")

    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration file must contain a mapping")

    return config


def validate_run_config(config: Dict[str, Any]) -> SearchConfig:
    """
    Validate run configuration structure and search parameters.

    Args:
        config: Run configuration dictionary

    Returns:
        The validated SearchConfig

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    for field in ['input', 'output']:
        if field not in config:
            raise ConfigValidationError(f"Missing required field: '{field}'")

    # Validate input section
    if not isinstance(config['input'], dict):
        raise ConfigValidationError("'input' must be a dictionary")

    if 'target' not in config['input']:
        raise ConfigValidationError("Missing required field: 'input.target'")

    target_path = Path(config['input']['target'])
    if not target_path.exists():
        raise ConfigValidationError(f"Target image not found: {target_path}")

    width = config['input'].get('width')
    if width is not None and (isinstance(width, bool) or not isinstance(width, int) or width <= 0):
        raise ConfigValidationError(f"'input.width' must be a positive integer, got: {width}")

    seed_document = config['input'].get('initial_document')
    if seed_document and not Path(seed_document).exists():
        raise ConfigValidationError(f"Initial document not found: {seed_document}")

    # Validate output section
    if not isinstance(config['output'], dict):
        raise ConfigValidationError("'output' must be a dictionary")

    if 'root' not in config['output']:
        raise ConfigValidationError("Missing required field: 'output.root'")

    try:
        return SearchConfig.from_dict(config)
    except TypeError as e:
        raise ConfigValidationError(f"Invalid search configuration: {e}")


def apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge command-line overrides into the 'search' section.

    Args:
        config: Run configuration dictionary (not modified)
        overrides: Search fields to replace

    Returns:
        New configuration dictionary
    """
    if not overrides:
        return config

    search = config.get('search') or {}
    if not isinstance(search, dict):
        raise ConfigValidationError("'search' must be a dictionary")

    merged = dict(config)
    merged['search'] = {**search, **overrides}
    return merged


def run_from_config(
    config_path: str,
    overrides: Optional[Dict[str, Any]] = None,
    validate_only: bool = False
) -> None:
    """
    Load run configuration and execute the vectorize workflow.

    This is the main entry point called by vectorize_cli.py.

    Args:
        config_path: Path to run configuration YAML file
        overrides: Search fields taking precedence over the file
        validate_only: Stop after validation

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
        Various exceptions from the search itself
    """
    print(f"Loading configuration from: {config_path}")
    config = apply_overrides(load_run_config(config_path), overrides or {})

    print(f"Validating configuration...")
    search_config = validate_run_config(config)
    print()

    if validate_only:
        print(f"Configuration is valid: {search_config}")
        return

    from .orchestration import run_vectorize
    run_vectorize(config)

    print("\nRun completed successfully!")
