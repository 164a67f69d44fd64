"""Shared configuration and observability for the targeted estimator."""
