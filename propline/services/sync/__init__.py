"""Cross-provider identity and game-log resolution.

- adapters: one adapter per upstream stats provider
- matchers: player resolver with fixed provider fallback order
- utils: name and team-code normalization
"""
