"""Tests for the shapewire runtime."""
