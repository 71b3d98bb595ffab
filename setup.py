"""
Setup script for the SceneReconstruction Structure-from-Motion front end.
"""

from setuptools import setup, find_packages
import os


def read_readme():
    """Read README file for long description."""
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "Feature extraction, two-view geometry and scene graph for Structure-from-Motion"


# Core requirements (always installed)
install_requires = [
    'opencv-python>=4.5.0',
    'numpy>=1.19.0',
    'scipy>=1.6.0',
    'Pillow>=8.0.0',
    'psutil>=5.8.0'
]

# Optional dependencies for different use cases
extras_require = {
    'dev': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0',
    ],
}

setup(
    name="scene-reconstruction",
    version="1.0.0",
    description="Concurrent feature matching, robust two-view estimation and a reconstruction scene graph",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=['SceneReconstruction', 'SceneReconstruction.*']),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    keywords=[
        "computer vision",
        "structure from motion",
        "feature matching",
        "essential matrix",
        "opencv"
    ],
)
