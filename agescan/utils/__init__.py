"""
Shared Utilities

- config: pydantic-settings Settings
- logging: console logging setup and the progress log
- schemas: ProfileRecord and the CSV header
- sinks: lock-guarded output files
"""
