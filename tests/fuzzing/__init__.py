"""Fuzz testing suite for jsrepl."""

from .fuzz import Fuzzer, FuzzRunner, random_identifier, random_literal, run_suite

__all__ = ["Fuzzer", "FuzzRunner", "random_identifier", "random_literal", "run_suite"]
