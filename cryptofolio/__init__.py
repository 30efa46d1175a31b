"""Cryptofolio - crypto portfolio tracking API."""

from cryptofolio._version import VERSION

__version__ = VERSION
