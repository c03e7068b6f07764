from setuptools import setup, find_packages

setup(
    name='intake_intelligence',
    version='1.0.0',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'pyyaml>=6.0',
        'numpy>=1.24.0',
        'opencv-python>=4.8.0',
        'pillow>=10.0.0',
        'openai>=1.3.0',
        'anthropic>=0.7.0',
        'google-generativeai>=0.3.0',
        'python-dotenv>=1.0.0',
        'httpx>=0.25.0',
        'pydantic>=2.0.0',
    ],
    extras_require={
        'dev': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
            'pytest-cov>=4.1.0',
            'black>=23.0.0',
            'flake8>=6.0.0',
            'mypy>=1.5.0',
        ]
    },
)
