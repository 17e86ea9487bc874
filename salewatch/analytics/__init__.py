"""Rolling statistics, snapshots, forecasts and summary reports."""
