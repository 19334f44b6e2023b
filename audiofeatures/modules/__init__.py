"""
Modules - Business logic.

- analysis/   - Feature calculators, analysis pipeline, job scheduler
- sampling/   - Tempo-aligned reads from a feature cache
"""
