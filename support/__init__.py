"""
Pipeline Worker — Support Package

Ambient services shared by the worker core:
  - support.logging: JSON log formatter and lifecycle event logger
  - support.config:  three-tier YAML configuration loader
  - support.health:  health checks and the embedded web endpoint
"""
