"""
Services that sit on top of the resolver, forecaster and props parser.

- prediction_ledger: append-only record of forecasts and their outcomes
- evaluation_service: attaches actual results to pending ledger entries
- compare_service: concurrent stats/forecast/odds lookup for one player
"""
