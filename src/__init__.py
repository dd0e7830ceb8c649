"""Production Fulfillment & Inventory Allocation core."""
