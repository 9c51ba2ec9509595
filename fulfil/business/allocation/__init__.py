from fulfil.business.allocation.allocation_engine import AllocationEngine, AllocationPlan

__all__ = ['AllocationEngine', 'AllocationPlan']
