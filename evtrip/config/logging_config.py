"""
Logging modes for the EV trip planner

Pick a mode with ``CURRENT_LOGGING_MODE`` or pass one to
``evtrip.utils.logger.setup_logger``.
"""

LOG_DIR = "debug_logs"

LOGGING_MODES = {
    # Warnings and infeasible plans only, no files
    'PRODUCTION': {
        'log_level': 'WARNING', 'enable_console': True, 'enable_file': False,
        'detailed_logging': False, 'log_format': 'minimal',
    },
    'DEVELOPMENT': {
        'log_level': 'INFO', 'enable_console': True, 'enable_file': True,
        'detailed_logging': False, 'log_format': 'simple',
    },
    # Every slot decision, to console and file
    'DEBUG': {
        'log_level': 'DEBUG', 'enable_console': True, 'enable_file': True,
        'detailed_logging': True, 'log_format': 'detailed',
    },
    'SILENT': {
        'log_level': 'CRITICAL', 'enable_console': False, 'enable_file': False,
        'detailed_logging': False, 'log_format': 'minimal',
    },
    # Full detail, file only
    'TESTING': {
        'log_level': 'DEBUG', 'enable_console': False, 'enable_file': True,
        'detailed_logging': True, 'log_format': 'detailed',
    },
}

DEVELOPMENT_LOGGING = LOGGING_MODES['DEVELOPMENT']

CURRENT_LOGGING_MODE = 'DEVELOPMENT'

# Per-module switches, keyed by the ``module`` name passed to the log helpers
MODULE_LOGGING = {
    'segmentation': True,
    'plan_mutation': True,
    'stop_order': True,
    'charger_store': True,
    'planning_service': True,
}


def get_logging_config(mode: str = None) -> dict:
    """Settings for ``mode`` (case-insensitive); unknown modes fall back to DEVELOPMENT."""
    name = (mode or CURRENT_LOGGING_MODE).upper()
    return dict(LOGGING_MODES.get(name, DEVELOPMENT_LOGGING))


def switch_mode(mode: str):
    global CURRENT_LOGGING_MODE
    name = mode.upper()
    if name not in LOGGING_MODES:
        raise ValueError(f"Unknown logging mode '{mode}', expected one of {sorted(LOGGING_MODES)}")
    CURRENT_LOGGING_MODE = name


def is_module_logging_enabled(module_name: str) -> bool:
    return MODULE_LOGGING.get(module_name, True)


def enable_module_logging(module_name: str):
    MODULE_LOGGING[module_name] = True


def disable_module_logging(module_name: str):
    MODULE_LOGGING[module_name] = False
