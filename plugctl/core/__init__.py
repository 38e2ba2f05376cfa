"""Installation engine: platform resolution, download, file planning and lifecycle"""
