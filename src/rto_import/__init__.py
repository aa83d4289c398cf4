"""RTO qualification import pipeline.
Author: Sunil Paudel
"""
