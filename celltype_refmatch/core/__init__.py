"""Core classification components.

- reference: input validation and pseudo-bulk aggregation
- markers: pairwise marker selection
- scoring: correlation scoring, fine-tuning and pruning
- classify: training, classification engine and parallel scoring
- combine: merging results across references
"""
