"""Domain Event definitions.

Represents significant occurrences within the acquisition layer (calls,
retries, tier outcomes, provider failovers) that other parts of the system
might react to.
"""
