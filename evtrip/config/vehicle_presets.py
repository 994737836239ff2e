# Popular EVs in the US market with planner-facing specs (imperial units)
VEHICLE_PRESETS = {
    'tesla-model-3': {
        'name': 'Tesla Model 3',
        'battery_capacity_kwh': 75,
        'efficiency_miles_per_kwh': 4.0,
        'connector_type': 'NACS',
        'max_charge_rate_kw': 250,
    },
    'tesla-model-y': {
        'name': 'Tesla Model Y',
        'battery_capacity_kwh': 75,
        'efficiency_miles_per_kwh': 3.6,
        'connector_type': 'NACS',
        'max_charge_rate_kw': 250,
    },
    'rivian-r1t': {
        'name': 'Rivian R1T',
        'battery_capacity_kwh': 135,
        'efficiency_miles_per_kwh': 2.2,
        'connector_type': 'CCS',
        'max_charge_rate_kw': 220,
    },
    # Tuned so max range ~= 400 mi
    'rivian-r1s': {
        'name': 'Rivian R1S',
        'battery_capacity_kwh': 140,
        'efficiency_miles_per_kwh': 2.85,
        'connector_type': 'CCS',
        'max_charge_rate_kw': 220,
    },
    'ford-mach-e': {
        'name': 'Ford Mustang Mach-E',
        'battery_capacity_kwh': 88,
        'efficiency_miles_per_kwh': 2.9,
        'connector_type': 'CCS',
        'max_charge_rate_kw': 150,
    },
    'hyundai-ioniq-5': {
        'name': 'Hyundai Ioniq 5',
        'battery_capacity_kwh': 77,
        'efficiency_miles_per_kwh': 3.2,
        'connector_type': 'CCS',
        'max_charge_rate_kw': 235,
    },
    'kia-ev6': {
        'name': 'Kia EV6',
        'battery_capacity_kwh': 77,
        'efficiency_miles_per_kwh': 3.1,
        'connector_type': 'CCS',
        'max_charge_rate_kw': 235,
    },
}

DEFAULT_VEHICLE_PRESET = 'tesla-model-y'
