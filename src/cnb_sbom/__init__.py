"""
cnb-sbom: attach and retrieve Cloud Native Buildpacks SBOM layers in OCI images.
"""
__version__ = "0.1.0"
