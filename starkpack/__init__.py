"""Starkpack - a Starknet buildpack that installs starkli and declares the contract class."""

__version__ = "0.1.0"
