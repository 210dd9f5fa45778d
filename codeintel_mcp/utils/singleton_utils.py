"""singleton pattern base class implementation"""


class SingletonInstance:
    """base class for process-wide single instances

    each subclass gets its own slot, so Logger and other subclasses
    never share an instance.
    """

    _instances: dict = {}

    @classmethod
    def instance(cls, *args, **kwargs):
        """create or get the instance for this class"""
        if cls not in SingletonInstance._instances:
            SingletonInstance._instances[cls] = cls(*args, **kwargs)
        return SingletonInstance._instances[cls]

    @classmethod
    def has_instance(cls) -> bool:
        return cls in SingletonInstance._instances

    @classmethod
    def reset_instance(cls):
        """drop the instance for this class (for testing)"""
        SingletonInstance._instances.pop(cls, None)
