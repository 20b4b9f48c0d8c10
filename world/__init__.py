from .reference_path import FLAT_CURVATURE_RADIUS_M, ReferencePath, is_symbolic

__all__ = ['FLAT_CURVATURE_RADIUS_M', 'ReferencePath', 'is_symbolic']
