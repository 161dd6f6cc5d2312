from dagwire._internal.markers import Group, In, Maybe, MaybeMarker, Name, Out

__all__ = ["Group", "In", "Maybe", "MaybeMarker", "Name", "Out"]
