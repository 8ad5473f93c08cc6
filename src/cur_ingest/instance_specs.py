# ========================
# src/cur_ingest/instance_specs.py
# ========================

"""
Instance Spec Resolution

Turns an instance type such as "m5.xlarge" into (vCPU, memory GiB).
"""

import math
import re
from typing import Dict, Tuple

# (cpu, memory_gib)
INSTANCE_SPECS: Dict[str, Tuple[int, float]] = {
    't2.nano': (1, 0.5), 't2.micro': (1, 1), 't2.small': (1, 2), 't2.medium': (2, 4),
    't2.large': (2, 8), 't2.xlarge': (4, 16), 't2.2xlarge': (8, 32),
    't3.nano': (2, 0.5), 't3.micro': (2, 1), 't3.small': (2, 2), 't3.medium': (2, 4),
    't3.large': (2, 8), 't3.xlarge': (4, 16), 't3.2xlarge': (8, 32),
    'm5.large': (2, 8), 'm5.xlarge': (4, 16), 'm5.2xlarge': (8, 32), 'm5.4xlarge': (16, 64),
    'm5.8xlarge': (32, 128), 'm5.12xlarge': (48, 192), 'm5.16xlarge': (64, 256),
    'm5.24xlarge': (96, 384),
    'c5.large': (2, 4), 'c5.xlarge': (4, 8), 'c5.2xlarge': (8, 16), 'c5.4xlarge': (16, 32),
    'c5.9xlarge': (36, 72), 'c5.12xlarge': (48, 96), 'c5.18xlarge': (72, 144),
    'c5.24xlarge': (96, 192),
    'r5.large': (2, 16), 'r5.xlarge': (4, 32), 'r5.2xlarge': (8, 64), 'r5.4xlarge': (16, 128),
    'r5.8xlarge': (32, 256), 'r5.12xlarge': (48, 384), 'r5.16xlarge': (64, 512),
    'r5.24xlarge': (96, 768),
}

SIZE_MULTIPLIERS: Dict[str, float] = {
    'nano': 0.25,
    'micro': 0.5,
    'small': 1,
    'medium': 2,
    'large': 4,
    'xlarge': 8,
    '2xlarge': 16,
    '4xlarge': 32,
    '8xlarge': 64,
    '12xlarge': 96,
    '16xlarge': 128,
    '24xlarge': 192,
}

# family letter -> (base cpu, base memory)
FAMILY_BASES: Dict[str, Tuple[int, int]] = {
    'c': (2, 2),
    'm': (2, 8),
    'r': (2, 16),
}
DEFAULT_FAMILY_BASE = (1, 4)

INSTANCE_TYPE_PATTERN = re.compile(r'(\w+)\.(\w+)$')


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class InstanceSpecResolver:
    """Curated lookup first, then a family/size heuristic."""

    def resolve(self, instance_type: str) -> Tuple[int, float]:
        """
        Resolve CPU and memory for an instance type.

        Args:
            instance_type (str): e.g. "m5.xlarge" or "db.r5.large"

        Returns:
            tuple: (cpu, memory); (0, 0) when nothing can be inferred
        """
        if not instance_type:
            return 0, 0

        normalized = instance_type.strip().lower()
        if normalized in INSTANCE_SPECS:
            return INSTANCE_SPECS[normalized]

        match = INSTANCE_TYPE_PATTERN.search(normalized)
        if not match:
            return 0, 0

        family, size = match.groups()
        multiplier = SIZE_MULTIPLIERS.get(size, 1)
        base_cpu, base_memory = FAMILY_BASES.get(family[:1], DEFAULT_FAMILY_BASE)
        return round_half_up(base_cpu * multiplier), round_half_up(base_memory * multiplier)
