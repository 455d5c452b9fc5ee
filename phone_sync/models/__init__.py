"""Configuration, operational records and normalized phone shapes."""
