"""
Charging Network Configuration
Separate from planner config to focus on station/provider-specific settings
"""

# Operator brand normalization: first matching substring wins
NETWORK_ALIASES = [
    ('tesla', 'Tesla'),
    ('supercharger', 'Tesla'),
    ('electrify america', 'Electrify America'),
    ('electrifyamerica', 'Electrify America'),
    ('chargepoint', 'ChargePoint'),
    ('evgo', 'EVgo'),
    ('greenlots', 'Shell Recharge'),
    ('shell', 'Shell Recharge'),
    ('blink', 'Blink'),
    ('volta', 'Volta'),
    ('flo', 'FLO'),
    ('sema', 'SemaConnect'),
]

# Brands we trust enough to infer from a station's display name
NAME_INFERABLE_NETWORKS = {
    'Tesla', 'Electrify America', 'ChargePoint', 'EVgo', 'Shell Recharge'
}

UNKNOWN_NETWORK = 'Unknown'
UNKNOWN_NETWORK_TITLES = {'', 'unknown', 'n/a', 'na'}

# Connector title normalization: first matching substring wins
CONNECTOR_ALIASES = [
    ('ccs', 'CCS'),
    ('combo', 'CCS'),
    ('chademo', 'CHAdeMO'),
    ('j1772', 'J1772'),
    ('type 1', 'J1772'),
    ('tesla', 'NACS'),
    ('nacs', 'NACS'),
]

# Which station connectors each vehicle port can use (NACS assumes adapters)
CONNECTOR_COMPATIBILITY = {
    'NACS': {'NACS', 'CCS', 'J1772'},
    'CCS': {'CCS', 'J1772'},
}

# Availability label thresholds on available/total stalls
AVAILABILITY_THRESHOLDS = {
    'high': 0.6,
    'medium': 0.3,
}

# Status words that mark a station as effectively unavailable
UNAVAILABLE_STATUS_WORDS = ('unavailable', 'closed', 'out', 'removed')

# Defaults when a provider record lacks data
STATION_DEFAULTS = {
    'max_power_kw': 50.0,
    'stall_count': 4,
    'name': 'Charging Station',
}

# API Configuration
API_CONFIG = {
    'openchargemap': {
        'base_url': 'https://api.openchargemap.io/v3',
        'rate_limit_seconds': 0.5,
        'max_results_per_request': 100,
        'max_radius_km': 100,
        'timeout_seconds': 15,
    },
    'mapquest': {
        'base_url': 'https://www.mapquestapi.com',
        'rate_limit_seconds': 0.2,
        'timeout_seconds': 15,
        'max_matrix_locations': 25,
    },
    'nominatim': {
        'user_agent': 'EV-Trip-Planner/1.0',
        'timeout_seconds': 10,
    },
}
