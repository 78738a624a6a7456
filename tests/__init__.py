"""Test suite for the embedflow package."""
