"""Chatspace: realtime one-to-one chat backend."""
