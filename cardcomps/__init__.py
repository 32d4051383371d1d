"""Card Comps — comparable-sales aggregation and population-rarity pricing."""
