"""Driving a browsing context and sampling what it paints."""
