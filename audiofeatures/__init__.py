"""
Audio Feature Cache - tempo-aligned audio analysis

Clean Architecture structure:
- core/      - Application core (config, errors, timing, cache model, loaders)
- common/    - Shared utilities (logging, DSP primitives)
- modules/   - Business modules (analysis, sampling)
"""

__version__ = "0.1.0"
