"""
GPU Provisioner - GPU node initialization for Dataproc-style Hadoop/Spark clusters

Installs the NVIDIA driver and CUDA toolkit, the RAPIDS Accelerator for Spark,
and configures YARN for GPU scheduling and isolation (including MIG mode).
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
