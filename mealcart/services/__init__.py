"""
Async services: remote API clients, connectivity, sync queue, offline
shopping lists and the optimistic meal-plan coordinator.
"""
