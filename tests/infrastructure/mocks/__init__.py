"""Mock device sources and operators."""
