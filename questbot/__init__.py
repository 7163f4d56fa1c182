"""Quest Bot — branching interactive-fiction engine with progression and ranking."""
