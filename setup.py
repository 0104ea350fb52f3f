from setuptools import setup, find_packages

setup(
    name="vpp-dispatch-sim",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "numpy>=1.20.0",
        "pyyaml>=5.4.0",  # For scenario and strategy files
        "pandas>=1.3.0",  # For run history analysis
    ],
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'black>=21.5b2',
            'mypy>=0.900',
        ],
    },
    description="A discrete-time simulator for virtual power plant demand-response dispatch",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Energy",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    package_data={
        "vppsim": ["py.typed"],
    },
    zip_safe=False,
)
