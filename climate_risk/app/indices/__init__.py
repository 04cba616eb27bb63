"""
Indices package — standardized climate indices.

Modules:
    climate_indices — SPI, SPEI, simplified PDSI, heat index, wind chill,
                      rolling index series and SPI drought analysis
"""
