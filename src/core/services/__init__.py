# Stateless analytics helpers (attribution, device, geo, links, engagement).
# Pure functions consumed by src.components.analytics; no persistence here.
