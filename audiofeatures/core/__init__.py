"""
Core - Application infrastructure.

- config/      - Settings loaded from the environment
- timing/      - Tempo mapping and hop quantization
- cache/       - Feature cache model, identity, profiles, serialization
- adapters/    - PCM sources and audio file loading
- errors.py    - Error hierarchy
"""
