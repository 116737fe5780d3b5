"""Raffle ticket allocation and winner draw service."""
