from setuptools import setup, find_packages

setup(
    name="ecg_monitor",
    version="0.1.0",
    description="Streaming ECG monitoring with BPM estimation, event classification and session recording",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "opencv-python>=4.8",
        "SQLAlchemy>=2.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "ecg-monitor=main:main",
        ]
    },
)
