"""Teardown of lab resources."""
