"""
Service entry points for the monitoring system.

Each subdirectory contains a standalone service that runs in its own process.

Services:
    simulator: Generates synthetic meter readings and runs them through detection
"""
