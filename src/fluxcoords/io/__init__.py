from .datafile import Datafile

__all__ = ['Datafile']
