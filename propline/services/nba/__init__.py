"""
NBA-specific services.

This module contains the basketball-specific business logic:
- prop_values: prop type definitions and per-game stat extraction
- injury_model: injury status normalization and minutes/usage adjustments
- forecast_service: weighted-average and numeric-model forecasts
- player_props_parser: best prop line selection from odds payloads
"""
