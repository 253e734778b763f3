"""Domain layer: resolution pipeline, snapshots, polling and notifications."""
